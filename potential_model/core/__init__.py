"""Profile, sizing, rate / incentive, cash-flow and metric building blocks."""
