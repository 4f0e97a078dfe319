from setuptools import setup, find_packages


setup(
    name="cryptarchive",
    version="0.1",
    packages=find_packages(include=["cryptarchive", "cryptarchive.*"]),
    description="Persist objects as encrypted, compressed single-file containers.",
    author="vercingetorx",
    python_requires=">=3.8",
    install_requires=[
        "pycryptodomex>=3.23.0",
        "argon2-cffi>=23.1.0",
    ],
    extras_require={
        "zstd": ["zstandard>=0.22.0"],
    },
    entry_points={
        "console_scripts": [
            "cryptarchive=cryptarchive.cli:main",
        ]
    },
)
