"""UK Companies House filtered search backend"""
