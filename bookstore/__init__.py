"""
Bookstore Service — 書店の在庫・売上管理サービス
"""
