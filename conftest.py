"""
Root pytest configuration for the Django project.

Points pytest at the project settings. App-specific fixtures live in each
app's tests/conftest.py and the shared hooks in app/conftest.py.
"""

import os

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
