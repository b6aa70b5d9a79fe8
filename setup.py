#!/usr/bin/python

import re

from setuptools import setup, find_packages

# read the version without importing georec, which needs numpy
with open('georec/__init__.py') as f:
    version = re.search(r"^__version__ = '([^']+)'",f.read(),re.M).group(1)

with open('README.rst') as f:
    long_description = f.read()

setup(packages=find_packages(),
      version=version,
      name='georec',
      package_dir={'':'.'},
      description='georec geographical POI recommender library',
      long_description=long_description,
      classifiers=['Development Status :: 4 - Beta',
                   'Environment :: Console',
                   'License :: OSI Approved :: BSD License',
                   'Operating System :: Unix',
                   'Programming Language :: Python',
                   'Programming Language :: Python :: 3',
                   'Topic :: Scientific/Engineering',],
      python_requires='>=3.7',
      install_requires=['numpy',
                        'scipy',
                        'scikit-learn',
                        'psutil'],
      extras_require={
          'test':['pytest'],
      },
)
