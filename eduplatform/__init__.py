"""Exam attempts and points wallet service for the education platform."""
