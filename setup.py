from setuptools import find_packages, setup

setup(
    name="ftp-vfs",
    version="0.1.0",
    description="File-like access to FTP, FTPS and SFTP servers",
    author="Daniel T Sasser II",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "cachetools>=5.0.0",
        "paramiko>=3.0.0",
    ],
    python_requires=">=3.10",
    extras_require={
        "test": [
            "pytest",
            "pyftpdlib",
        ],
        "dev": [
            "pytest",
            "pyftpdlib",
            "build",
            "twine",
        ],
    },
)
