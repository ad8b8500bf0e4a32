"""Micromouse - a mouse that learns to run a maze with tabular Q-learning.

The package generates perfect mazes, encodes the mouse's view into compact
relative states, shapes rewards and trains a Q-learning agent generation by
generation, driven either synchronously or from a Qt timer.
"""

__version__ = "1.0.0"
__author__ = "Micromouse Demo"
