# backend/quotehub/schemas/__init__.py
