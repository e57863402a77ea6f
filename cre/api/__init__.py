# cre/api/__init__.py
