"""
fieldsync
Reference catalogs feeding the intake form: salesmen, building types, villages.
"""

from fieldsync.models import db

DEFAULT_SALESMEN = ("Firtana", "Ahmad", "Budi", "Cindy", "Deni")
DEFAULT_BUILDING_TYPES = ("Residential", "Commercial", "Industrial", "Mixed-Use", "Office", "Retail")


class Salesman(db.Model):
    __tablename__ = "salesmen"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), unique=True, nullable=False)

    def __repr__(self):
        return f"<Salesman {self.name}>"


class BuildingType(db.Model):
    __tablename__ = "building_types"

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(255), unique=True, nullable=False)

    def __repr__(self):
        return f"<BuildingType {self.type}>"


class Village(db.Model):
    """Locality entry, name is the comma-joined postal code,village,district,city,province."""

    __tablename__ = "villages"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), unique=True, nullable=False)

    def __repr__(self):
        return f"<Village {self.name}>"
