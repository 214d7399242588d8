"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- 狀態機：集中管理所有 Lobby 狀態轉換
- Manager：管理 Lobby 的生命週期
- Registry：房間表
- Ledger：餘額與交易紀錄
- Locks：並發控制工具
"""
