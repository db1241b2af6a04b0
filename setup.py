#!/usr/bin/env python
from setuptools import setup, find_packages

with open("README.rst") as f:
    long_description = f.read().replace(":mod:", "")


config_info = {
    "version"  : "0.1.0",
    "packages" : find_packages(),
}


setup(
    name = "contexthmm",
    install_requires = [
        "numpy",
        "scipy",
        "matplotlib",
        "jsonpickle",
    ],
    extras_require = {
        "test" : ["pytest"],
    },
    python_requires = ">=3.7",

    description = (
        "Context-profile hidden Markov models for sequence-context-specific "
        "pseudocounts, with online Baum-Welch training"
    ),
    long_description = long_description,
    long_description_content_type = "text/x-rst",

    license   = "BSD 3-Clause",
    keywords  = "HMM hidden Markov model context profile pseudocounts Baum-Welch sequence",
    platforms = "POSIX",

    classifiers=[
         'Development Status :: 4 - Beta',
         'Programming Language :: Python',
         'Programming Language :: Python :: 3',
         'Topic :: Scientific/Engineering :: Bio-Informatics',
         'License :: OSI Approved :: BSD License',
         'Operating System :: POSIX',
        ],

    **config_info
) # yapf: disable
