"""Setup script for the nextmeeting calendar engine."""

import os
from pathlib import Path

from setuptools import find_packages, setup
from setuptools.command.develop import develop
from setuptools.command.install import install


def post_install_setup():
    """Create the user configuration directory and point at the example config."""
    try:
        config_dir = Path.home() / ".config" / "nextmeeting"
        config_dir.mkdir(parents=True, exist_ok=True)
        if hasattr(os, "chmod"):
            os.chmod(config_dir, 0o755)

        config_file = config_dir / "config.yaml"
        if not config_file.exists():
            print("\n" + "=" * 60)
            print("nextmeeting installation complete")
            print("=" * 60)
            print(f"Configuration directory: {config_dir}")
            print("\nNext steps:")
            print("1. Copy config.example.yaml to the configuration directory as config.yaml")
            print("2. Run 'nextmeeting calendars' to list calendar sources")
            print("3. Run 'nextmeeting --help' to see all available commands")
            print("=" * 60)

    except OSError as e:
        print(f"Warning: Post-install setup failed: {e}")
        print("You may need to create the configuration directory manually.")


class PostInstallCommand(install):
    """Custom install command with post-install setup."""

    def run(self):
        install.run(self)
        post_install_setup()


class PostDevelopCommand(develop):
    """Custom develop command with post-install setup."""

    def run(self):
        develop.run(self)
        post_install_setup()


readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
dev_requirements = []

if requirements_file.exists():
    for line in requirements_file.read_text().strip().split("\n"):
        line = line.strip()
        # Skip empty lines and comments
        if not line or line.startswith("#"):
            continue

        # Separate test dependencies
        if "pytest" in line:
            dev_requirements.append(line)
        else:
            requirements.append(line)

setup(
    name="nextmeeting",
    version="0.1.0",
    description="Upcoming meetings from Evolution Data Server calendars over D-Bus",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="nextmeeting developers",
    packages=find_packages(include=["nextmeeting", "nextmeeting.*"]),
    include_package_data=True,
    install_requires=requirements,
    extras_require={
        "dev": dev_requirements,
    },
    python_requires=">=3.11",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business :: Scheduling",
        "Framework :: AsyncIO",
    ],
    keywords="calendar evolution-data-server dbus gnome meetings icalendar async",
    entry_points={
        "console_scripts": [
            "nextmeeting=nextmeeting.__main__:main",
        ],
    },
    zip_safe=False,
    platforms=["linux"],
)
