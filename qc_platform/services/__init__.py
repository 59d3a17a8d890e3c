"""Business logic. Services receive repositories; they never touch ``db.session``."""
