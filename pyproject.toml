[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nexusnode"
version = "0.1.0"
description = "HTTP node service for Caddy reverse-proxy services, Docker-hosted agents and wallet login challenges"
requires-python = ">=3.10"
keywords = [
    "caddy",
    "reverse-proxy",
    "docker",
    "agents",
    "wallet",
    "signature",
    "flask",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "flask",
    "pycryptodome",
    "pynacl",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
nexusnode = "nexusnode.webapp:main"

[tool.hatch.build.targets.wheel]
packages = ["nexusnode"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
