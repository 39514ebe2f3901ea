# Utility helpers shared by services and blueprints
