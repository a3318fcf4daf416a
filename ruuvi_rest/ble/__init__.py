"""Bluetooth Low Energy sample source for Ruuvi sensors."""
