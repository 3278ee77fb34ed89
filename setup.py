"""
Setup file.
"""

from setuptools import find_packages, setup

NAME = "process-stream"
VERSION = "1.0.0"
DESCRIPTION = "Spawn-on-subscribe async streams of process output with kill-on-cancel semantics"
KEYWORDS = "subprocess process stream asyncio kill tree"
INSTALL_REQUIRES = ["psutil"]


if __name__ == "__main__":
    setup(
        name=NAME,
        version=VERSION,
        description=DESCRIPTION,
        keywords=KEYWORDS,
        python_requires=">=3.11",
        package_dir={"": "src"},
        packages=find_packages(where="src"),
        install_requires=INSTALL_REQUIRES,
        extras_require={"test": ["pytest"]},
        entry_points={"console_scripts": ["process-stream=process_stream.cli:main"]},
        include_package_data=True,
    )
