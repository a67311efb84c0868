"""
Main entry point for the water coil controller demo

Launch the demo with: python main.py

Author: HVAC Controllers Project
Date: 2026-10-18
"""

from hvac_controllers.demo import main

if __name__ == "__main__":
    main()
