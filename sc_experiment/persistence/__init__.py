"""
Persistence layer: conversion to / from AnnData and h5ad files.
"""

from .anndata_convert import from_anndata, to_anndata
from .h5ad import read_h5ad, write_h5ad

__all__ = ["from_anndata", "to_anndata", "read_h5ad", "write_h5ad"]
