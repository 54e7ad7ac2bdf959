# pixelforge/core/__init__.py
"""
Core application modules.
Contains essential infrastructure components:
- bootstrap: Default admin creation on first startup
- db: Tortoise ORM configuration and connection management
- locks: Per-username asyncio locks
- security: Password hashing and JWT tokens
- validation: Field rules shared by request schemas and services
"""
