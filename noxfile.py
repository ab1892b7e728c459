######################################################################
#
# File: noxfile.py
#
# Copyright 2020 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################
import os

import nox

CI = os.environ.get('CI') is not None
NOX_PYTHONS = os.environ.get('NOX_PYTHONS')

PYTHON_VERSIONS = [
    '3.8',
    '3.9',
    '3.10',
    '3.11',
    '3.12',
] if NOX_PYTHONS is None else NOX_PYTHONS.split(',')

PYTHON_DEFAULT_VERSION = PYTHON_VERSIONS[-1]

PY_PATHS = ['b2backblaze', 'test', 'noxfile.py', 'setup.py']

nox.options.reuse_existing_virtualenvs = not CI
nox.options.sessions = [
    'lint',
    'unit',
]

PYTEST_GLOBAL_ARGS = []
if CI:
    PYTEST_GLOBAL_ARGS.append('-vv')


@nox.session(name='format', python=PYTHON_DEFAULT_VERSION)
def format_(session):
    """Lint the code and apply fixes in-place whenever possible."""
    session.install('ruff')
    session.run('ruff', 'check', '--fix', *PY_PATHS)
    session.run('ruff', 'format', *PY_PATHS)


@nox.session(python=PYTHON_DEFAULT_VERSION)
def lint(session):
    """Run linters in readonly mode."""
    session.install('ruff')
    session.run('ruff', 'check', *PY_PATHS)
    session.run('ruff', 'format', '--check', *PY_PATHS)


@nox.session(python=PYTHON_VERSIONS)
def unit(session):
    """Run unit tests."""
    session.install('-e', '.[test]')
    session.run(
        'pytest',
        '--cov=b2backblaze',
        '--cov-branch',
        '--cov-report=xml',
        '--doctest-modules',
        *PYTEST_GLOBAL_ARGS,
        *session.posargs,
        'b2backblaze',
        'test',
    )
    if not session.posargs:
        session.notify('cover')


@nox.session(python=PYTHON_DEFAULT_VERSION)
def cover(session):
    """Perform coverage analysis."""
    session.install('coverage')
    session.run('coverage', 'report', '--fail-under=75', '--show-missing', '--skip-covered')
    session.run('coverage', 'erase')
