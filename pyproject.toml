[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "edgenet"
version = "0.10.1"
description = "Dependency-free DHCP client and server and captive-portal DNS responder for asyncio"
requires-python = ">=3.10"
dependencies = []
keywords = ["dhcp", "bootp", "dns", "captive-portal", "network", "asyncio"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: System :: Networking",
    "Topic :: Internet :: Name Service (DNS)",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
edgenet-captive = "edgenet.captive.server:main"

[tool.hatch.build.targets.wheel]
packages = ["edgenet"]

[tool.hatch.build.targets.sdist]
include = ["edgenet", "tests"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
