"""Hourly energy balance of PV + battery candidates."""

from potential_model.simulation.dispatch import EnergyBalance, simulate_energy_balance

__all__ = [
    'EnergyBalance',
    'simulate_energy_balance',
]
