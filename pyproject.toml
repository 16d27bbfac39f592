[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "scalehttp"
version = "0.1.0"
description = "Scale-to-zero HTTP interceptor handlers, routing middleware and HTTPScaledObject reconciler"
requires-python = ">=3.10"
dependencies = []
keywords = ["autoscaling", "proxy", "http", "scale-to-zero", "interceptor", "reconciler"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["scalehttp"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
