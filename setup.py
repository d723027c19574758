from setuptools import setup, find_packages

setup(
    name             = 'smsbr-conversations',
    version          = '1.0.0',
    description      = 'smsbr — SMS Backup & Restore XML loader and conversation index',
    author           = 'smsbr contributors',
    packages         = find_packages(exclude=['tests*']),
    install_requires = open('requirements.txt').read().splitlines(),
    extras_require   = {
        'test': ['pytest>=7.0'],
    },
    entry_points     = {
        'console_scripts': [
            'smsbr = smsbr.cli:main',
        ],
    },
    python_requires  = '>=3.10',
    classifiers      = [
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
)
