[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lomsvc"
version = "0.1.0"
description = "Order and stock management with stock reservations and an outbox of order events"
requires-python = ">=3.10"
dependencies = []
keywords = ["orders", "stock", "reservation", "outbox", "logistics"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["lomsvc"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
