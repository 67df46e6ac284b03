"""Saheli services"""
