"""Column types shared across models."""

from sqlalchemy import DateTime
from sqlalchemy.dialects import mysql

# MySQL DATETIME defaults to whole seconds; cursors need microseconds.
Timestamp = DateTime(timezone=True).with_variant(mysql.DATETIME(fsp=6), "mysql")
