######################################################################
#
# File: b2backblaze/version.py
#
# Copyright 2019 Backblaze Inc. All Rights Reserved.
#
# License https://www.backblaze.com/using_b2_code.html
#
######################################################################

import platform
from importlib.metadata import PackageNotFoundError, version

try:
    VERSION = version('b2backblaze')
except PackageNotFoundError:
    # running from a source tree that was never installed
    VERSION = '0.0.0'

USER_AGENT = 'b2backblaze/%s python/%s' % (VERSION, platform.python_version())
