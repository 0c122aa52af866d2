# -*- coding: utf-8 -*-
"""Board domain: tasks, subtasks, comments and their user assignments. No sqlite here."""
