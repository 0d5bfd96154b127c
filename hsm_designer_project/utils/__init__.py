# hsm_designer_project/utils/__init__.py
