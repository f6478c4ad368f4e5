[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "flow"
version = "0.1.0"
description = "A small, explicit WSGI web framework with middleware, signed-cookie sessions, controllers and cached Jinja2 views."
requires-python = ">=3.10"
keywords = ["wsgi", "web", "framework", "middleware", "sessions", "templates", "jinja2"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Web Environment",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
    "Topic :: Software Development :: Libraries :: Application Frameworks",
]
dependencies = [
    "jinja2>=3.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[tool.hatch.build.targets.wheel]
packages = ["flow"]

[tool.hatch.build.targets.sdist]
include = ["flow", "tests"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
