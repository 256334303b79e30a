"""
Feature modules live under this package.

Each module owns its service layer and views; blueprints defined here are
nested under the "administration" area blueprint, so their endpoints resolve to
(area, controller, action) privileges.
"""
