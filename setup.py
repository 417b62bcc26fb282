from setuptools import find_namespace_packages, setup


setup(
    name="hibernator",
    version="0.4.0",
    description="Suspend-then-hibernate provisioning for atomic btrfs hosts",
    author="hibernator contributors",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src", include=["hibernator*"]),
    package_data={
        "hibernator": ["*/*.toml"]
    },
    python_requires=">=3.11",
    install_requires=['zenlib>=3.0.0'],
    entry_points={
        "console_scripts": [
            "hibernator = hibernator.main:main"
        ]
    }
)
