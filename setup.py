# setup.py
import re

import os
from setuptools import find_packages
from setuptools import setup


def get_version_from_init():
    """Reads the __version__ string from smart_gesture/__init__.py."""
    init_py_path = os.path.join(
        os.path.dirname(os.path.abspath(__file__)), "smart_gesture", "__init__.py"
    )
    try:
        with open(init_py_path, "r", encoding="utf-8") as f:
            version_file_content = f.read()
        version_match = re.search(
            r"^__version__\s*=\s*['\"]([^'\"]*)['\"]",
            version_file_content,
            re.M,
        )
        if version_match:
            return version_match.group(1)
        raise RuntimeError(
            f"Unable to find __version__ string in {init_py_path}."
        )
    except FileNotFoundError as exc:
        raise RuntimeError(
            f"{init_py_path} not found. Ensure you are in the correct directory."
        ) from exc


try:
    with open("README.md", "r", encoding="utf-8") as f:
        long_description = f.read()
except FileNotFoundError:
    long_description = (
        "Arbitration between built-in and player-trained motion gesture recognizers."
    )


setup(
    name="smart-gesture",
    version=get_version_from_init(),
    description="Arbitration between built-in and player-trained motion gesture recognizers.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(
        where=".", include=["smart_gesture", "smart_gesture.*", "gesture_simulator", "gesture_simulator.*"]
    ),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Operating System :: OS Independent",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: Games/Entertainment",
    ],
    python_requires=">=3.8",
    install_requires=[
        "click>=7.0",  # For the simulator CLI
        "rich>=10.0.0",  # For the simulator dashboard
        "fastapi>=0.68.0",  # For the simulator HTTP debug server
        "uvicorn>=0.15.0",  # For running the FastAPI server
        "pydantic>=1.8",
    ],
    extras_require={
        "dev": [
            "pytest>=6.0",
            "pytest-asyncio>=0.15",
            "pytest-mock>=3.0",
            "httpx>=0.23",  # Needed by fastapi.testclient
        ],
    },
    entry_points={
        "console_scripts": [
            "gesture-simulator=gesture_simulator.main:main",
            "gesture_simulator=gesture_simulator.main:main",
        ],
    },
    keywords="motion gesture recognition signature smart-training asyncio",
)
