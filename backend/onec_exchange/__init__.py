"""
Приём обмена с 1С:Предприятие по протоколу CommerceML.

Каталог (import*.xml), предложения (offers*.xml) и заказы (orders*.xml)
загружаются потоково и сверяются с базой магазина.
"""

__version__ = "1.0.0"
