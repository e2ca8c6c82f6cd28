from setuptools import setup, find_packages

from version import CHIRP_VERSION


def read_requirements(filename):
    with open(filename) as rfp:
        return [i for i in rfp.read().split('\n') if not (i.startswith('#') or len(i) == 0)]


setup(
    name='chirp',
    version=CHIRP_VERSION,
    author='chirp',
    packages=find_packages(include=['chirp', 'chirp.*', 'cproject']),
    py_modules=['version'],
    install_requires=read_requirements('requirements/common.txt'),
    extras_require={'test': read_requirements('requirements/dev.txt')},
)
