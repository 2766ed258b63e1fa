"""
Maintenance scripts for the Brainac API.

Modules:
- seed_content: Seed subjects, units, chapters and videos for classes 6-10
- expire_subscriptions: Persist ``expired`` for lapsed trials and subscriptions
"""
