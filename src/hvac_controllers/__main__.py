"""
Entry point for the water coil controller demo

Allows running the demo with: python -m hvac_controllers

Author: HVAC Controllers Project
Date: 2026-10-18
"""

from hvac_controllers.demo import main

if __name__ == "__main__":
    main()
