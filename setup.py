import os

from setuptools import find_packages, setup


def read(fname):
    return open(os.path.join(os.path.dirname(__file__), fname)).read()


setup(
    name="ctffit",
    version="0.3.0",
    data_files=[
        ("", ["src/ctffit/config_default.yaml"]),
        ("", ["src/ctffit/logging.conf"]),
    ],
    include_package_data=True,
    description="Contrast transfer function parameter estimation from power spectra",
    long_description=read("README.md"),
    long_description_content_type="text/markdown",
    license="GPLv3",
    install_requires=[
        "click",
        "confuse>=2.0.0",
        "mrcfile",
        "numpy>=1.21",
        "psutil",
        "scipy>=1.8",
        "setuptools>=0.41",
        "tqdm",
    ],
    # Developer tools that are handy but not required for users.
    extras_require={
        "dev": [
            "black",
            "bumpversion",
            "check-manifest",
            "flake8>=3.7.0",
            "isort",
            "pyflakes",
            "pydocstyle",
            "parameterized",
            "pytest",
            "pytest-cov",
            "pytest-random-order",
            "tox",
        ],
    },
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    package_data={"ctffit": ["config_default.yaml", "logging.conf"]},
    zip_safe=True,
    test_suite="tests",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Programming Language :: Python",
        "License :: OSI Approved :: GNU General Public License v3 (GPLv3)",
    ],
    entry_points={
        "console_scripts": [
            "ctffit = ctffit.__main__:main_entry",
        ]
    },
)
