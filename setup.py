######################################################################
#
# File: setup.py
#
# Copyright 2019 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

from setuptools import setup, find_packages

with open('README.md', encoding='utf-8') as f:
    long_description = f.read()

with open('requirements.txt', encoding='utf-8') as f:
    requirements = [line.strip() for line in f if line.strip()]

setup(
    name='b2backblaze',
    version='1.0.0',
    description='Client library for Backblaze B2 Cloud Storage, with large file uploads',
    long_description=long_description,
    long_description_content_type='text/markdown',
    author='Backblaze, Inc.',
    author_email='support@backblaze.com',
    license='MIT',
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'Topic :: Software Development :: Libraries',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
    ],
    keywords='backblaze b2 cloud storage large file upload',
    packages=find_packages(exclude=['test*']),
    python_requires='>=3.8',
    install_requires=requirements,
    # pip install -e .[test]
    extras_require={
        'test': ['pytest', 'pytest-cov'],
    },
)
