"""
服務層

這個 package 包含純計算邏輯，不負責狀態轉換：
- DiceService：擲骰（Randomness Source）
- ResolutionService：逐輪淘汰直到唯一贏家
- PayoutService：派彩計算
- SettlementService：把結果寫進 Ledger（只寫一次）
"""
