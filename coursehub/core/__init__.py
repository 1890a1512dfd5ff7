# coursehub/core/__init__.py
