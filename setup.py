# -*- coding: utf-8 -*-

# Learn more: https://github.com/kennethreitz/setup.py

from setuptools import setup, find_packages


with open('README.md') as f:
    readme = f.read()

setup(
    name='pyenkf',
    version='0.1.0',
    description='Stochastic Ensemble Kalman Filter update step',
    long_description=readme,
    long_description_content_type='text/markdown',
    install_requires=["numpy>=1.17", "scipy>=1.4"],
    extras_require={
        "gpu": ["cupy"],
        "test": ["pytest>=6"],
    },
    python_requires=">=3.7",
    license='MIT',
    packages=find_packages(include=('pyenkf', 'pyenkf.*')),
    classifiers=[
        'Development Status :: 3 - Alpha',
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ]
)
