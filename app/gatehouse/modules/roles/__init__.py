"""
Role administration: role CRUD, the role -> privilege links, and the
privilege tree shown in the role editor.
"""
