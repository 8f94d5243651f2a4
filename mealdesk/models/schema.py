"""
Table definitions for the lunch ordering store.

Column names match the statements each entity descriptor carries, so the
same names appear in SQL text, bound parameters and retrieved rows.
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
)

metadata = MetaData()

meal_type_table = Table(
    "MealType",
    metadata,
    Column("ID", Integer, primary_key=True, autoincrement=True),
    Column("Name", String(64), nullable=False, unique=True),
)

meal_table = Table(
    "Meal",
    metadata,
    Column("ID", Integer, primary_key=True, autoincrement=True),
    Column("MealType_ID", Integer, ForeignKey("MealType.ID"), nullable=False),
    Column("Name", String(255), nullable=False),
)

lunch_table = Table(
    "Lunch",
    metadata,
    Column("ID", Integer, primary_key=True, autoincrement=True),
    Column("Soup_ID", Integer, ForeignKey("Meal.ID"), nullable=False),
    Column("MainMeal_ID", Integer, ForeignKey("Meal.ID"), nullable=False),
    Column("Dessert_ID", Integer, ForeignKey("Meal.ID"), nullable=False),
    Column("Price", Numeric(10, 2), nullable=False),
    Column("Date", Date, nullable=False),
    Column("MaxOrderTime", DateTime, nullable=False),
)

user_table = Table(
    "User",
    metadata,
    Column("ID", Integer, primary_key=True, autoincrement=True),
    Column("FirstName", String(64), nullable=False),
    Column("LastName", String(64), nullable=False),
    Column("Username", String(64), nullable=False, unique=True),
    Column("PasswordHashed", String(60), nullable=False),
    Column("Credit", Numeric(10, 2), nullable=False, default=0),
)

lunch_order_table = Table(
    "LunchOrder",
    metadata,
    Column("ID", Integer, primary_key=True, autoincrement=True),
    Column("Lunch_ID", Integer, ForeignKey("Lunch.ID"), nullable=False),
    Column("User_ID", Integer, ForeignKey("User.ID"), nullable=False),
    Column("Picked", Boolean, nullable=True),
)
