from setuptools import setup


setup(
    name="tracker-merge",
    version="0.3.0",
    description="Keyed upsert of candidate and JR exports into a styled, human-edited recruitment tracking workbook",
    packages=["tracker_merge"],
    python_requires=">=3.10",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "test": ["pytest"],
        "all": ["xlrd"],
    },
    entry_points={
        "console_scripts": [
            "tracker-merge=tracker_merge.cli:main",
        ]
    },
)
