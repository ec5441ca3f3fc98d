"""Main entry point for the MedBuddy tracker."""

from medbuddy.main import run

if __name__ == "__main__":
    run()
