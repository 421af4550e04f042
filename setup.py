from setuptools import setup


setup(
    name="intake-doctor",
    version="0.1.0",
    description="Normalize client, worker and task spreadsheets and validate them before scheduling rules are built",
    packages=["intake_doctor"],
    python_requires=">=3.9",
    install_requires=[
        "pandas>=1.4",
        "chardet",
        "openpyxl",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "ods": ["odfpy"],
        "all": ["xlrd", "odfpy"],
    },
    entry_points={
        "console_scripts": [
            "intake-doctor=intake_doctor.cli:main",
        ]
    },
)
