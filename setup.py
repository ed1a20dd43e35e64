# Standard setup.py file for building and installing the package.

from setuptools import setup, find_packages

setup(
    name='ParticleForge',
    version='0.1',
    packages=find_packages(include=['particle_forge', 'particle_forge.*']),
    install_requires=[
        'warp-lang',
        'numpy',
        'tqdm',
    ],
    extras_require={
        'test': ['pytest'],
    },
    license='Apache License 2.0',
    author='Oliver Hennigh',
)
