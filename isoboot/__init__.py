"""Bootable USB writer for ISO disk images."""
