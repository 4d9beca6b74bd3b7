[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rwebapi"
version = "0.1.0"
description = "A small REST API service with a user account model, schema migrations and a health endpoint"
requires-python = ">=3.11"
keywords = ["rest", "api", "flask", "sqlalchemy", "migrations", "health-check", "openapi"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: Database",
]
dependencies = [
    "sqlalchemy>=2.0",
    "flask>=2.3",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
]

[project.scripts]
rwebapi-server = "rwebapi.app:main"
rwebapi-migrate = "rwebapi.migrations:main"

[tool.hatch.build.targets.wheel]
packages = ["rwebapi"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
warn_redundant_casts = true
