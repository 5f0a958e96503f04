from setuptools import setup

# Project metadata and dependencies live in setup.cfg.
setup()
