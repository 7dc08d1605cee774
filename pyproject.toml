[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "barblocks"
version = "0.1.0"
description = "Status bar blocks for i3bar-compatible status lines: battery, CPU, disk space, backlight, apt, docker, bitcoin price and more"
requires-python = ">=3.10"
dependencies = []
keywords = ["i3", "i3bar", "sway", "status bar", "statusline", "blocks"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: X11 Applications",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Desktop Environment :: Window Managers :: Applets",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["barblocks"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
