"""Basket engine interface and its in-memory simulation."""

from basketmigrator.basket.base import BasketEngine
from basketmigrator.basket.ledger import Ledger
from basketmigrator.basket.simulated import SimulatedBasket

__all__ = [
    "BasketEngine",
    "Ledger",
    "SimulatedBasket",
]
