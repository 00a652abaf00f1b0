from os import path
import io
from setuptools import setup, find_packages

with io.open(path.join(path.abspath(path.dirname(__file__)), 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name = 'mogclient',
    version = '1.0.0',
    description = 'Client for the MogileFS distributed filesystem',
    long_description=long_description,
    long_description_content_type='text/markdown',
    license = 'GPL',

    packages = find_packages(),

    python_requires = '>=3.5',

    install_requires = [
        'progressbar2',
    ],

    setup_requires = [
        'pytest-runner',
    ],

    tests_require = [
        'pytest',
    ],

    extras_require = {
        'test': ['pytest'],
    },

    entry_points = {
        'console_scripts': [
            'mogclient = mogclient.client.shell:main',
            'mogclient-bigfile = mogclient.scripts.bigfile:main',
        ],
    }
)
