import os
from setuptools import find_packages, setup

if os.name != "nt":
    # For backward compatibility with py suffix
    scripts = ["espmapper.py"]
    entry_points = {
        "console_scripts": [
            "espmapper=espmapper.__init__:_main",
        ],
    }
else:
    scripts = []
    entry_points = {
        "console_scripts": [
            "espmapper=espmapper.__init__:_main",
            # For backward compatibility with py suffix
            "espmapper.py=espmapper.__init__:_main",
        ],
    }

setup(
    name="espmapper",
    version="1.0.0",
    description="Memory map reconstruction for ESP32 and ESP32-S2 firmware images",
    license="GPL-2.0-or-later",
    python_requires=">=3.10",
    packages=find_packages(include=["espmapper", "espmapper.*"]),
    install_requires=[
        "rich_click",
        "intelhex",
        "PyYAML>=5.1",
        "cmsis-svd",
        "colorama; sys_platform == 'win32'",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    scripts=scripts,
    entry_points=entry_points,
)
