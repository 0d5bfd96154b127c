# hsm_designer_project/managers/__init__.py
