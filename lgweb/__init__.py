"""FastAPI applications for the bird-lg proxy agent and frontend"""
