#!/usr/bin/env python
from setuptools import setup
import os


def get_version():
    curdir = os.path.dirname(__file__)
    filename = os.path.join(curdir, 'src', 'fontspider', 'version.py')
    with open(filename, 'rb') as fp:
        return fp.read().decode('utf8').split('=')[1].strip(" \n'")


def readme():
    with open('README.rst') as f:
        return f.read()


setup(
    name='fontspider',
    version=get_version(),
    description='Find the fonts declared and used by CSS stylesheets',
    long_description=readme(),
    classifiers=[
        'Development Status :: 3 - Alpha',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: Text Processing :: Fonts',
        'Topic :: Internet :: WWW/HTTP :: Site Management',
    ],
    keywords='css font-face webfont subset',
    url='https://github.com/kyamagu/fontspider',
    author='Kota Yamaguchi',
    author_email='KotaYamaguchi1984@gmail.com',
    license='MIT License',
    package_dir={'': 'src'},
    packages=[
        'fontspider',
    ],
    python_requires='>=3.10',
    install_requires=[
        'cssutils>=2.6',
        'tinycss2>=1.2',
    ],
    extras_require={
        'test': [
            'pytest'],
    },
    include_package_data=True,
    entry_points={
        'console_scripts': ['fontspider=fontspider.__main__:main']
    },
    tests_require=['pytest'],
    )
