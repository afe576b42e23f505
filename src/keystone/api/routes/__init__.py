"""One router per resource, mounted under ``/api`` in ``keystone.main``."""
