"""Modules package - Controller engine components and shipped collaborators"""
