from setuptools import find_packages, setup
import os
from glob import glob

package_name = "hegemon_tui"

setup(
    name=package_name,
    version="1.0.0",
    packages=find_packages(exclude=["test"]),
    data_files=[
        (os.path.join("share", package_name, "config"), glob("config/*.yaml")),
    ],
    python_requires=">=3.10",
    install_requires=["setuptools", "PyYAML", "psutil"],
    extras_require={"test": ["pytest"]},
    zip_safe=True,
    description="A curses-based terminal dashboard for system metric streams",
    license="MIT",
    tests_require=["pytest"],
    entry_points={
        "console_scripts": [
            "hegemon = hegemon_tui.hegemon:main",
        ],
    },
)
