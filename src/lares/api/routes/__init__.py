"""Route modules mounted by :func:`lares.api.main.create_app`."""
