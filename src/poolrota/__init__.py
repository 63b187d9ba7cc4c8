# poolrota - Lifeguard seat rotation and break queue core
__version__ = "0.3.0"
