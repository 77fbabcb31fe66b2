"""ShotSpot - korfball club backend with federation registration enforcement"""
