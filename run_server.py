#!/usr/bin/env python
"""
Wrapper to run the Companion server from a source checkout.
"""
import asyncio
import os
import sys

# Add the current directory to Python path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import main

if __name__ == "__main__":
    asyncio.run(main.main())
    main.start_server()
