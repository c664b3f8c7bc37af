[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pix"
version = "0.3.0"
description = "Command-line image generation and editing through the FAL API"
requires-python = ">=3.10"
keywords = ["image-generation", "fal", "cli", "text-to-image", "image-editing"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: POSIX",
    "Operating System :: MacOS",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Graphics",
]
dependencies = [
    "pyyaml",
    "requests",
    "pillow",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[project.scripts]
pix = "pix.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["pix"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
