# hsm_designer_project/core/__init__.py
