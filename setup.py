"""Setup script for concatener"""
from setuptools import setup
from pathlib import Path
readme_path = Path(__file__).parent / "README.md"
long_description = readme_path.read_text(encoding="utf-8") if readme_path.exists() else ""
setup(
    name="concatener",
    version="0.2.0",
    author="Concatener Project",
    description="Concatenate files, directories and wildcard patterns with automatic encoding detection",
    long_description=long_description,
    long_description_content_type="text/markdown",
    py_modules=["concatener"],
    python_requires=">=3.8",
    install_requires=["chardet>=4.0.0,<6"],
    extras_require={
        "progress": ["tqdm>=4.60.0", "rich>=12.0.0"],
        "dev": ["pytest>=6.0.0", "black>=22.0.0", "flake8>=4.0.0", "pytest-asyncio"],
        "full": ["tqdm>=4.60.0", "rich>=12.0.0"],
    },
    entry_points={
        "console_scripts": [
            "concatener=concatener:cli_main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Text Processing",
        "Topic :: Utilities",
    ],
)
